"""Course platform backend.

This package exposes the service, repository and model modules used by
the FastAPI application, plus the exercise synchronization job that
mirrors the exercises git repository into the database. Individual
modules contain the concrete implementations and documentation.
"""
