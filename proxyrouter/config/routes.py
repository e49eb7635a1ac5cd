PROXY_CONFIG = {
    "proxy": {
        "skipInvalidProxies": True,
        "endpoints": {
            "/api": "http://localhost:5001",
            "/auth": {
                "target": "http://localhost:5002",
                "allowedMethods": ["GET", "POST"],
                "allowedHeaders": ["authorization"],
                "timeout": 2.0,
                "headers": {"x-api": "auth-service"},
            },
        },
    }
}
