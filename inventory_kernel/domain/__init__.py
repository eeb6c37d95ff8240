"""Pure domain layer: DTOs, profit arithmetic, calendar windows, clocks."""
