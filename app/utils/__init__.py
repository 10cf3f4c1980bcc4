"""
Utilities Package

Helpers shared by the Google Books client, the search index client and
the local book store.
"""
