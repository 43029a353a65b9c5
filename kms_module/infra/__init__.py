# CUI // SP-CTI
"""Terraform file generation for the KMS module."""
