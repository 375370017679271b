"""promptloop — scheduled prompt execution with chat-channel delivery."""

__version__ = "0.1.0"
