"""
Base Core - Shared Infrastructure

Settings, logging, database and Redis helpers shared by the gateway
packages and apps. Nothing in here knows about sessions or transports.
"""
