"""
PolicyBot - conversational vehicle insurance advisor
"""
