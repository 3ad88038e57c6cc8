"""Configuration and logging shared by the compiler and the CLI."""
