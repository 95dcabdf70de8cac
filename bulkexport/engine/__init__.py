# Export engine: serializer -> part builder -> worker pool -> multipart session
