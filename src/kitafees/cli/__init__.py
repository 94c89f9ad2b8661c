"""CLI layer for kitafees application."""
