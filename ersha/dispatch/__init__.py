"""Dispatcher event storage: the storage interface and an in-memory backend."""