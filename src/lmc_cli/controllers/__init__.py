"""Persistence: named artifacts and content-addressed breakpoints"""
