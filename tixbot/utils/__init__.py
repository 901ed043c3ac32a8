"""Filesystem and process helpers shared by the shell components"""
