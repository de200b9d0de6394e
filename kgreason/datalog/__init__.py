"""
Datalog model, evaluation engine and program parser.
"""
