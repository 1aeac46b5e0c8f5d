"""
Convo Backend — Core
=====================

Storage-agnostic building blocks used by the services:
    querystring   typed search parameters ⇄ URLs
    validator     payload rules and per-table segregation
    serializer    public keys, object merging, sensitive-field removal
    mapper        multi-table objects with compensating writes
    transaction   ordered operations with reverse-order compensation
    security      bcrypt hashing and JWT issue/verify
"""
