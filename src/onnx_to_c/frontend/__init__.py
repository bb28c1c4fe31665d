"""Model loading"""
