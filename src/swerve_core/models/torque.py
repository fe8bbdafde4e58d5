"""Motor torque models injected into consumers that need motor constants."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TorqueModel:
    """DC motor electrical constants.

    Attributes
    ----------
    resistance_ohms:
        Winding resistance, used to turn a torque current into a voltage.
    torque_constant:
        ``kT`` in Nm per amp.
    """

    resistance_ohms: float
    torque_constant: float

    def __post_init__(self) -> None:
        if self.resistance_ohms <= 0.0 or self.torque_constant <= 0.0:
            raise ValueError(
                f"Torque model constants must be positive, got R={self.resistance_ohms}, kT={self.torque_constant}"
            )

    def current_for_torque(self, torque_nm: float) -> float:
        """Current in amps needed to produce ``torque_nm``."""
        return torque_nm / self.torque_constant

    def torque_at_current(self, current_amps: float) -> float:
        return current_amps * self.torque_constant

    def torque_ff_volts(self, torque_nm: float) -> float:
        """Feed-forward voltage for the desired torque, ignoring back-EMF."""
        return self.current_for_torque(torque_nm) * self.resistance_ohms

    @classmethod
    def falcon(cls) -> "TorqueModel":
        """Falcon 500 (12 V, 257 A stall, 4.69 Nm stall torque)."""
        return cls(resistance_ohms=12.0 / 257.0, torque_constant=4.69 / 257.0)

    @classmethod
    def kraken(cls) -> "TorqueModel":
        """Kraken X60 (12 V, 366 A stall, 7.09 Nm stall torque)."""
        return cls(resistance_ohms=12.0 / 366.0, torque_constant=7.09 / 366.0)
