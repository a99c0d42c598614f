"""Shellport backend: FastAPI application and terminal session broker"""
