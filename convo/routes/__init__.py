"""
Convo Backend — API Routes Package
===================================

Route Inventory (prefix = settings.api_prefix, "/api" by default):
    index.py          GET  /api
    profiles.py       /api/profiles, /api/profiles/{id}
    resources.py      /api/categories, /api/messages (router factory)
    conversations.py  /api/conversations, /api/conversations/{id},
                      /api/conversations/{id}/messages
    auth.py           POST /api/auth/login | refresh | logout
    health.py         GET  /health

Routes stay thin: they pull the body, URL and caller out of the request,
call one service method and pick the status code.
"""
