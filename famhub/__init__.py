"""
FamHub backend package.

This package provides a FastAPI application over two independent stores: a
relational store for users and questions, and an Airtable-style tabular store
for browsing records, questions and memories.
"""
