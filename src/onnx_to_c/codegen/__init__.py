"""C code generation"""
