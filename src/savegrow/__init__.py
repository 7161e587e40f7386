"""savegrow: custodial vaults with time-weighted reward accrual."""

__version__ = "0.1.0"
