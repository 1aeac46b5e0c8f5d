"""
Convo Backend — Services Layer
===============================

Business logic between the routes (HTTP) and the record store.

Service Inventory:
    - ResourceService:  generic validate → map → serialize pipeline
        ProfileService, CategoryService, ConversationService, MessageService
    - AuthService:      login, refresh, per-request authentication
"""
