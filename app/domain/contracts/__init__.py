"""Contracts with a signing window, addressed by private token"""
