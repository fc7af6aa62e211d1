"""
U^2-Net background removal microservice package.

Exposes reusable primitives for loading the two ONNX sessions, encoding
images into tensors, running the segmentation + mask-resize sequence,
compositing the mask onto a canvas, and serving the FastAPI application.
"""
