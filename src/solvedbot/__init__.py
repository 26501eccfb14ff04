"""SolvedBot: tracks forum posts through unsolved/solved and tidies them up afterwards."""

__version__ = "1.0.0"
