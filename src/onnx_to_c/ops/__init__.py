"""Operator implementations"""
