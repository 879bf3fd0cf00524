"""
HTTP routers for the PokeDM engine
"""
