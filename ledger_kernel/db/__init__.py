"""Database layer: declarative base, engine/session factories, immutability listeners."""
