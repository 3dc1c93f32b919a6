"""Loader configuration"""
