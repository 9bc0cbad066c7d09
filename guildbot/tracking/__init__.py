"""Scraping, caching and trend logic for tracked characters."""
