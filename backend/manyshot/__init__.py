"""Many-shot prediction: sample a model repeatedly and tabulate its answers."""

__version__ = "1.0.0"
