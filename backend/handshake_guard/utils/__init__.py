"""Shared helpers: logging, keys, anti-forgery tokens and request utilities"""
