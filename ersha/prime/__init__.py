"""Device and dispatcher registries with filtering, sorting and pagination."""