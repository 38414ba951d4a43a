"""Keep ClusterImageSet resources in step with manifests stored in Git."""
