"""CineDeck: movie and TV discovery on top of TMDB."""

__version__ = "1.0.0"
