"""Clients for Azure Resource Manager and the Microsoft Graph directory."""
