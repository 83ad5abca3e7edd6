"""Trivia game domain services: catalog, rooms, scoring, timers and presence.

This package contains the game logic that socket handlers and HTTP routes
import, keeping transport concerns separated from the room state machine.
"""
