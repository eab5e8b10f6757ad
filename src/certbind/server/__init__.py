"""Production server runners."""
