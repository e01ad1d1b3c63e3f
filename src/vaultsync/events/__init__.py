"""Event vocabulary shared by the hub, the API routes and the client."""
