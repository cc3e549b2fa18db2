"""Pure domain code: clock, DTOs, balance arithmetic, FIFO planning."""
