"""Bitbucket Code Insights requests, helpers and the report annotator."""