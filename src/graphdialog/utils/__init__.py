"""Utility modules for GraphDialog"""
