"""Configuration, exceptions, startup checks and logging setup."""
