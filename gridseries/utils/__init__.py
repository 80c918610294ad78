"""GridSeries - Utilities Package"""
