"""Text-adventure engine with a moderated AI narrator."""
