"""Chorus: persistent voice personas that drift, argue and reach out."""
