"""This is the processing submodule.

This module contains the state classification itself: the interval algebra,
the Otsu split of the theta/delta ratio and the staged detection of movement,
sleep, freezing and quiet wakefulness.
"""
