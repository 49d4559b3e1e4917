"""Marketplace core: configuration, errors, collaborators and the engine"""
