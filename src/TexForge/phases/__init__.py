"""Per-tile processing stages: materialization and KTX2 compression."""
