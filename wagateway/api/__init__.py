"""HTTP control surface"""
