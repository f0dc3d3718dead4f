# fyiguard/__init__.py
"""
Keep this file minimal so 'fyiguard' is always a proper package.

Do NOT import submodules here. Import the app factory directly:
    from fyiguard.main import create_app
And run Uvicorn with:
    uvicorn --factory fyiguard.main:create_app
"""
