"""TeamVault metadata database — models, engine registry, sessions."""
