"""Reschedule ledger: append-only history of rescheduled stops"""
