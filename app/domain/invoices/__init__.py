"""Invoices with expiry and split/partial payment"""
