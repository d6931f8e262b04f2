"""Command line interface for capslap."""
