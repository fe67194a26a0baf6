"""Incident ticketing service: numbering and duplicate suppression."""
