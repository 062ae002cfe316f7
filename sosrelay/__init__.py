"""Store-and-forward SOS relay and command service."""
