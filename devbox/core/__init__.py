"""Core — models, config, engine, services and use cases."""
