"""Helping Hands event registration backend."""
