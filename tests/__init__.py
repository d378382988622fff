"""Test package for Guess It!

Core tests drive the session engine with a manual clock and fixed seeds, so
every countdown and feedback delay is deterministic.  The UI smoke tests run
pygame with the SDL dummy drivers.  Run ``pytest`` from the project root.
"""
