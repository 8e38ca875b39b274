"""Billing domain - per-client billing derived from settled visits"""
