from manim_studio.cli import run

run()
