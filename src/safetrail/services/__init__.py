"""
Services for SafeTrail
"""
