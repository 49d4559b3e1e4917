"""Shared utilities (logging)"""
