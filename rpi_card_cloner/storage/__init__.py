"""Storage layer: device helpers, disk backend and the clone pipeline."""
