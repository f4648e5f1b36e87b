"""Core infrastructure: settings, logging, database, errors"""
