"""FluentCoach - spoken English practice with instant grammar and fluency feedback."""

__version__ = "0.1.0"
