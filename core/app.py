"""
core/app.py — Headless application shell

Runs a ``GameSession`` off the pygame clock.  No window: the clock only
measures real frame time and caps the frame rate, and that ``dt`` is
fed to the session as virtual milliseconds.

    app = App(seed=1590)
    app.run(frames=600)
"""

from __future__ import annotations
import os
from typing import Callable

# No display or audio device needed for the simulation
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

import pygame

from simulation.session import GameSession


class App:
    def __init__(self, seed: int | None = None, fps: int = 60,
                 session: GameSession | None = None):
        pygame.init()
        self.clock = pygame.time.Clock()
        self.running = True
        self.fps = fps
        self.dt = 0.0
        self.frames = 0
        self.session = session if session is not None else GameSession(seed=seed)

        # Where the player stands, if a presentation layer reports it
        self.player_tile: tuple[int, int] | None = None

        # Called after every frame with the app, e.g. for console output
        self.on_frame: Callable[["App"], None] | None = None

    # -- Main loop --

    def step(self, dt_ms: float) -> None:
        """One frame of simulation with an explicit ``dt``."""
        self.dt = dt_ms
        self.session.update(dt_ms, self.player_tile)
        self.frames += 1
        if self.on_frame:
            self.on_frame(self)

    def run(self, frames: int | None = None, time_scale: float = 1.0):
        """Tick until stopped, or for *frames* frames.

        *time_scale* multiplies real frame time, so a long stretch of
        game time can be simulated quickly.
        """
        try:
            while self.running:
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self.running = False
                dt = self.clock.tick(self.fps) * time_scale
                self.step(dt)
                if frames is not None and self.frames >= frames:
                    self.running = False
        except KeyboardInterrupt:
            print("[SESSION] Interrupted")
        finally:
            pygame.quit()
