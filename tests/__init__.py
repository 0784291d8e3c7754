"""Test package for the midpoint ("between") trainer.

Core tests drive the round engine, judge and input adapters with a fake
clock. The smoke test runs the pygame loop with SDL's dummy drivers, so no
window or audio device is opened. Run ``pytest`` from the project root.
"""
