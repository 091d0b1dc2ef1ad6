"""Pydantic schemas shared by the run and its collaborators."""
