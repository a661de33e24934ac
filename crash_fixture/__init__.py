"""Crash fixture: a tiny TCP/HTTP server that a process supervisor can spawn and kill."""
